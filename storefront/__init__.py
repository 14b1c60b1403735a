import click
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from config import config

db = SQLAlchemy()


def create_app(config_name='default'):
    """Application factory — creates and configures the Flask app."""
    app = Flask(__name__)
    app.config.from_object(config[config_name])

    # ── Logging ───────────────────────────────────────────────────
    from storefront.utils.logging import setup_logging
    setup_logging(app)

    # ── Extensions ────────────────────────────────────────────────
    db.init_app(app)

    from storefront.cart.sync import init_cart_sync
    init_cart_sync(app)

    # ── Blueprints ────────────────────────────────────────────────
    from storefront.main import main as main_blueprint
    app.register_blueprint(main_blueprint)

    from storefront.auth import auth as auth_blueprint
    app.register_blueprint(auth_blueprint, url_prefix='/auth')

    from storefront.catalog import catalog as catalog_blueprint
    app.register_blueprint(catalog_blueprint, url_prefix='/products')

    from storefront.cart import cart as cart_blueprint
    app.register_blueprint(cart_blueprint, url_prefix='/cart')

    from storefront.orders import orders as orders_blueprint
    app.register_blueprint(orders_blueprint, url_prefix='/orders')

    from storefront.prescriptions import prescriptions as prescriptions_blueprint
    app.register_blueprint(prescriptions_blueprint, url_prefix='/prescriptions')

    # ── Per-request visitor state ─────────────────────────────────
    @app.teardown_request
    def forget_visitor(exc):
        """Identity and cart live for one request only."""
        from storefront.auth.identity import reset_identity
        reset_identity()

    # ── Error Handlers ────────────────────────────────────────────
    @app.errorhandler(400)
    def bad_request(e):
        return jsonify({'error': getattr(e, 'description', 'Bad request')}), 400

    @app.errorhandler(401)
    def unauthorized(e):
        return jsonify({'error': 'Authentication required'}), 401

    @app.errorhandler(403)
    def forbidden(e):
        return jsonify({'error': 'Access denied'}), 403

    @app.errorhandler(404)
    def not_found(e):
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(500)
    def internal_error(e):
        db.session.rollback()
        return jsonify({'error': 'Server error'}), 500

    # ── CLI Commands ──────────────────────────────────────────────
    register_commands(app)

    return app


def register_commands(app):
    """Register custom Flask CLI commands."""

    @app.cli.command('init-db')
    def init_db():
        """Create all database tables."""
        db.create_all()
        click.echo('✅  Database tables created.')

    @app.cli.command('seed-admin')
    @click.option('--name',     prompt='Full name',  help='Admin full name')
    @click.option('--email',    prompt='Email',      help='Admin email')
    @click.option('--password', prompt=True, hide_input=True,
                  confirmation_prompt=True, help='Admin password')
    def seed_admin(name, email, password):
        """Create the initial admin user."""
        from storefront.auth.models import User, RoleEnum

        if User.query.filter_by(email=email).first():
            click.echo(f'⚠️  User "{email}" already exists.')
            return

        admin = User(name=name, email=email, role=RoleEnum.admin)
        admin.set_password(password)
        db.session.add(admin)
        db.session.commit()
        click.echo(f'✅  Admin user "{email}" created successfully.')

    @app.cli.command('seed-demo')
    def seed_demo():
        """Populate database with a demo pharmacy catalogue and accounts."""
        from decimal import Decimal
        from storefront.auth.models import User, RoleEnum
        from storefront.catalog.models import Product

        click.echo("🌱 Seeding demo data...")
        db.create_all()

        accounts = [
            ('Admin User',    'admin@pharmacy.test',    'demo123', RoleEnum.admin),
            ('Sam Seller',    'seller@pharmacy.test',   'demo123', RoleEnum.seller),
            ('Casey Customer', 'customer@pharmacy.test', 'demo123', RoleEnum.customer),
        ]
        for name, email, password, role in accounts:
            if not User.query.filter_by(email=email).first():
                u = User(name=name, email=email, role=role)
                u.set_password(password)
                db.session.add(u)
        db.session.commit()
        click.echo("✅ Users created (admin/seller/customer @pharmacy.test, password demo123).")

        if Product.query.count() == 0:
            catalogue = [
                ('Paracetamol 500mg (20 tabs)', '4.90',  200, False),
                ('Ibuprofen 400mg (24 tabs)',   '6.50',  150, False),
                ('Vitamin C 1000mg (30 tabs)',  '12.00', 80,  False),
                ('Amoxicillin 500mg (21 caps)', '18.75', 40,  True),
                ('Saline Nasal Spray 30ml',     '7.20',  60,  False),
                ('Digital Thermometer',         '24.90', 25,  False),
                ('Losartan 50mg (30 tabs)',     '15.40', 35,  True),
                ('Sunscreen SPF 50 200ml',      '29.99', 45,  False),
            ]
            for name, price, stock, rx in catalogue:
                db.session.add(Product(
                    name=name, price=Decimal(price), stock=stock,
                    requires_prescription=rx,
                ))
            db.session.commit()
            click.echo("✅ Products seeded.")

        click.echo("✅ Demo seed complete.")

    @app.cli.command('cart-outbox')
    @click.option('--flush', is_flag=True, help='Drain pending writes now')
    def cart_outbox(flush):
        """Show pending cart sync writes held by this process."""
        from storefront.cart.sync import get_cart_sync

        sync = get_cart_sync()
        if flush:
            applied = sync.flush()
            click.echo(f'✅  Applied {applied} pending cart write(s).')

        pending = sync.outbox.pending()
        if not pending:
            click.echo('No pending cart writes.')
            return
        click.echo(f'{"User":<8} {"Product":<12} {"Kind":<8} {"Qty":<6} {"Attempts"}')
        click.echo('─' * 45)
        for op in pending:
            click.echo(f'{op.user_id:<8} {op.product_id or "*":<12} {op.kind:<8} '
                       f'{op.quantity:<6} {op.attempts}')

    # ── ProxyFix for HTTPS termination ──
    from werkzeug.middleware.proxy_fix import ProxyFix
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    return app
