import sys

from chatstream.main import main

sys.exit(main())
