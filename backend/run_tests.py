import os
import sys

import pytest
from dotenv import load_dotenv

if __name__ == "__main__":
    # Variables d'environnement locales (.env) ; les tests n'utilisent que la base en mémoire
    load_dotenv(dotenv_path=os.path.join(os.path.dirname(__file__), ".env"))

    backend_dir = os.path.dirname(os.path.abspath(__file__))
    test_path = os.path.join(backend_dir, "tests")

    # `app` importable sans installation
    sys.path.insert(0, backend_dir)

    exit_code = pytest.main([test_path, "-v", *sys.argv[1:]])
    sys.exit(exit_code)
