import sys

from keyage.cli import main

sys.exit(main())
