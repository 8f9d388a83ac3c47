import sys

from fprov.interfaces.cli import main

sys.exit(main())
