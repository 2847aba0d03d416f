import sys

from s3backup.cli import main


sys.exit(main())
