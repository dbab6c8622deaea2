import sys

from silkpath.generator.cli import main

sys.exit(main())
