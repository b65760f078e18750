import sys

from smart_codebase.cli import main

sys.exit(main())
