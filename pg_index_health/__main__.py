import sys

from pg_index_health.cli import main

sys.exit(main())
