"""python -m zhenduan"""

import sys

from .cli import main

sys.exit(main())
