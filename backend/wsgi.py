# backend/wsgi.py
from agroledger import create_app

app = create_app()
