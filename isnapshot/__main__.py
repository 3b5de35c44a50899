import sys

from isnapshot.cli import main

sys.exit(main())
