import sys

from swarm_sentinel.cli import main

sys.exit(main())
