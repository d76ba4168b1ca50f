import sys

from dirbackup.cli import main


sys.exit(main())
