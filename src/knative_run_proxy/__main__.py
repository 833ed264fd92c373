import sys

from knative_run_proxy.cli import main

sys.exit(main())
