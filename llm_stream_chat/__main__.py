"""Allow ``python -m llm_stream_chat``."""

import sys

from llm_stream_chat.cli import main

sys.exit(main())
