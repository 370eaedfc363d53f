import sys

from backend_attribution.main import main

sys.exit(main())
