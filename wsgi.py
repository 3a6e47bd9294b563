# wsgi.py (at repo root): ``gunicorn wsgi:app``
from local_yield import create_app

app = create_app()
