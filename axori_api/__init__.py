from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from flask_migrate import Migrate
from flasgger import Swagger

db = SQLAlchemy()
migrate = Migrate()
swagger = Swagger()

def create_app(config_class=None):
    """Application factory pattern"""
    if config_class is None:
        from config import Config
        config_class = Config

    app = Flask(__name__)
    app.config.from_object(config_class)

    app.config['SWAGGER'] = {
        'title': 'Axori API Documentation',
        'uiversion': 3,
        'openapi': '3.0.0',
        'info': {
            'title': 'Axori API',
            'description': 'Portfolio, property, document and Forge endpoints',
            'version': '1.0.0',
        },
        'components': {
            'securitySchemes': {
                'Bearer': {
                    'type': 'http',
                    'scheme': 'bearer',
                    'bearerFormat': 'JWT',
                    'description': 'Cognito access or id token'
                }
            }
        },
        'security': [
            {
                'Bearer': []
            }
        ]
    }

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    swagger.init_app(app)

    # '*' allows every origin (development); otherwise only the listed ones
    cors_origins = app.config.get('CORS_ALLOWED_ORIGINS', ['*'])
    CORS(app, resources={r"/api/*": {
        "origins": "*" if '*' in cors_origins else cors_origins,
        "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        "allow_headers": ["Content-Type", "Authorization"],
        "expose_headers": ["Content-Type"],
        "supports_credentials": True
    }})

    # Register every model so string relationships resolve
    from axori_api import models  # noqa: F401

    from axori_api.utils.errors import register_error_handlers
    register_error_handlers(app)

    # Customer-facing resources
    from axori_api.routes import (
        users, portfolios, portfolio_members, permissions, properties,
        transactions, loans, documents, communications, learning_hub
    )

    app.register_blueprint(users.bp, url_prefix='/api/users')
    app.register_blueprint(portfolios.bp, url_prefix='/api/portfolios')
    app.register_blueprint(portfolio_members.bp, url_prefix='/api/portfolio-members')
    app.register_blueprint(permissions.bp, url_prefix='/api/permissions')
    app.register_blueprint(properties.bp, url_prefix='/api/properties')
    app.register_blueprint(transactions.bp, url_prefix='/api/properties/<property_id>/transactions')
    app.register_blueprint(loans.bp, url_prefix='/api/properties/<property_id>/loans')
    app.register_blueprint(documents.bp, url_prefix='/api/documents')
    app.register_blueprint(communications.bp, url_prefix='/api/communications')
    app.register_blueprint(learning_hub.bp, url_prefix='/api/learning-hub')

    # Forge (internal admin)
    from axori_api.routes.forge import (
        tickets, executions, budget, decisions, registry, foundries, features, milestones, projects,
        agents, briefing
    )

    app.register_blueprint(tickets.bp, url_prefix='/api/forge/tickets')
    app.register_blueprint(executions.bp, url_prefix='/api/forge/executions')
    app.register_blueprint(budget.bp, url_prefix='/api/forge/budget')
    app.register_blueprint(decisions.bp, url_prefix='/api/forge/decisions')
    app.register_blueprint(registry.bp, url_prefix='/api/forge/registry')
    app.register_blueprint(milestones.bp, url_prefix='/api/forge/milestones')
    app.register_blueprint(foundries.bp, url_prefix='/api/forge/foundries')
    app.register_blueprint(features.bp, url_prefix='/api/forge/features')
    app.register_blueprint(projects.bp, url_prefix='/api/forge/projects')
    app.register_blueprint(agents.bp, url_prefix='/api/forge/agents')
    app.register_blueprint(briefing.bp, url_prefix='/api/forge/briefing')

    return app
