"""Allow ``python -m queue_processor.cli`` execution."""

import sys

from queue_processor.cli.manage import main

sys.exit(main())
