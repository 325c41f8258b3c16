import sys

from netrain_formula.cli import main

sys.exit(main())
