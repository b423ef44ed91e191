"""
PDF2CSV backend entrypoint

    gunicorn app:app
    python app.py
"""
import os

from pdf2csv import create_app

app = create_app(os.getenv('FLASK_ENV', 'production'))


if __name__ == '__main__':
    app.run(host='0.0.0.0', port=int(os.getenv('PORT', '8080')))
