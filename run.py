"""Local development entry point.

Usage:
    python run.py
"""

from dotenv import load_dotenv

load_dotenv()  # Load .env before the config classes read os.environ

from storefront import create_app

app = create_app()

if __name__ == "__main__":
    app.run(debug=True, port=5001)
