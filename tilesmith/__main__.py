import sys

from tilesmith.cli import main

sys.exit(main())
