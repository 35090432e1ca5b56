import sys

from blmesh.main import main

sys.exit(main())
