import sys

from http_aws4.cli import main

sys.exit(main())
