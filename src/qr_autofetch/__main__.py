import sys

from qr_autofetch.cli import main

sys.exit(main())
