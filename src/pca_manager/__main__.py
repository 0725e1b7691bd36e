import sys

from pca_manager.cli import main

sys.exit(main())
