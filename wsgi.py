import os
from storefront import create_app, db

config_name = os.environ.get('FLASK_ENV', 'production')
app = create_app(config_name)

# Ensure tables exist on first boot (no shell access on some hosts)
with app.app_context():
    db.create_all()

if __name__ == "__main__":
    app.run()
