import sys

from tf_graphx.cli import main

sys.exit(main())
