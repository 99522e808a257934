import sys

from doneday.cli import main

sys.exit(main())
