import sys

from treecopy.main import main

sys.exit(main())
