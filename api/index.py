"""
Serverless handler: exposes the Flask app as a single WSGI function.
"""
from portfolio import create_app

app = create_app()
