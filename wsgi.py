from app import create_app, db
import os

config_name = os.environ.get('FLASK_ENV', 'production')
app = create_app(config_name)

# Tables are created on startup so a fresh deployment can take sales
# without a shell session.
with app.app_context():
    db.create_all()
    app.logger.info(f"Schema checked ({config_name})")

if __name__ == "__main__":
    app.run()
