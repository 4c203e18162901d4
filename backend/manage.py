"""
Convenience wrapper for the Flask CLI:
    python manage.py run
    python manage.py events dispatch
    python manage.py users seed-roles
    flask db upgrade (with FLASK_APP=wsgi.py)
"""

from flask.cli import main

if __name__ == "__main__":
    main()
