"""Local development entry point.

Usage:
    python run.py

For the reminder detector, use the CLI instead:
    flask --app run watch-reminders --email you@example.com
"""

from dotenv import load_dotenv

load_dotenv()  # Load .env before anything else

from accountdesk import create_app

app = create_app()

if __name__ == "__main__":
    app.run(debug=True, host="0.0.0.0", port=5001)
