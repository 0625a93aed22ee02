import os
import sys

# Ensure src is in pythonpath
sys.path.append(os.path.join(os.path.dirname(__file__), "..", "src"))

from dotenv import load_dotenv
load_dotenv()

from kb_assistant.ingest.cli import main

if __name__ == "__main__":
    sys.exit(main())
