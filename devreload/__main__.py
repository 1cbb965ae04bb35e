import sys

from devreload.main import main

sys.exit(main())
