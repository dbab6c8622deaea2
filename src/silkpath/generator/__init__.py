"""SilkPath Studio - generation driver.

Runs as a separate process (``python -m silkpath.generator``) that calls the
image and caption providers and appends one gallery record per generated
photo.

Modules
-------
cli
    Argument parsing and the ``silkpath-generate`` entry point.
driver
    The batch run: select inputs, generate, save, caption, record.
inputs
    Style and hijab photo discovery.
prompt_builder
    Generation and caption prompt compilation.
providers
    OpenAI and Gemini image providers, Gemini captioner.
"""
