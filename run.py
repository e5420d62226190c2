from dotenv import load_dotenv
load_dotenv()  # Load .env file

from axori_api import create_app, db
from config import config
import os
import logging

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

app = create_app(config.get(os.environ.get('FLASK_ENV', 'development')))

@app.shell_context_processor
def make_shell_context():
    return {'db': db, 'app': app}

if __name__ == '__main__':
    with app.app_context():
        try:
            from axori_api.utils.db_init import initialize_database
            logger.info("Verifying database schema...")
            if initialize_database():
                logger.info("Database ready - starting Axori API")
            else:
                logger.warning("Database initialization reported problems - starting Axori API anyway")
        except Exception as e:
            logger.error(f"Database initialization error: {e}")
            logger.info("Starting Axori API anyway (run `flask db upgrade` to set up the schema)")

    port = int(os.environ.get('PORT', 5000))
    logger.info(f"Axori API listening on http://0.0.0.0:{port}")
    app.run(debug=app.config.get('DEBUG', False), host='0.0.0.0', port=port)
