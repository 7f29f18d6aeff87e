import os
import logging

import click
from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from werkzeug.security import generate_password_hash

from leados.config import config_by_name
from leados.extensions import db, migrate, login_manager, csrf, limiter

LANDING = {
    "product": "Leados AI",
    "tagline": "Sua prospecção B2B, automatizada",
    "description": (
        "Encontre e qualifique decisores, enriqueça dados com informações de "
        "CNPJ e exporte para o seu CRM em minutos. Foque em fechar, não em procurar."
    ),
    "features": [
        {
            "title": "Economize Tempo",
            "description": "Gere listas de leads qualificados em 90% menos tempo.",
        },
        {
            "title": "Inteligência de Dados",
            "description": (
                "Dados de CNPJ, regime tributário e decisores para uma "
                "abordagem personalizada."
            ),
        },
        {
            "title": "Venda Mais",
            "description": (
                "Com leads de alta qualidade, sua equipe passa mais tempo em "
                "reuniões e fechando negócios."
            ),
        },
    ],
}


def create_app(config_name=None):
    """Application factory."""

    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])

    # --- Validate required env vars (skip in testing) ---
    if config_name != "testing":
        try:
            config_by_name[config_name].validate()
        except RuntimeError as e:
            app.logger.warning(f"Config validation: {e}")

    # --- Init extensions ---
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)

    # --- Import models so Alembic can discover them ---
    with app.app_context():
        from leados import models  # noqa: F401

    # --- Register blueprints ---
    from leados.blueprints.auth import auth_bp
    from leados.blueprints.billing import billing_bp
    from leados.blueprints.crm import crm_bp
    from leados.blueprints.functions import functions_bp
    from leados.blueprints.webhooks import webhooks_bp
    from leados.blueprints.whatsapp import whatsapp_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(billing_bp)
    app.register_blueprint(crm_bp)
    app.register_blueprint(functions_bp)
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(whatsapp_bp)

    # JSON APIs rely on the SameSite=Lax session cookie instead of CSRF tokens
    for bp in (auth_bp, billing_bp, crm_bp, functions_bp, whatsapp_bp):
        csrf.exempt(bp)
    # Exempt webhooks from CSRF: raw body needed for Stripe signature verification
    csrf.exempt(webhooks_bp)

    # --- Landing & pricing ---
    from leados.services.plan_service import pricing_table

    @app.route("/")
    def index():
        """Public landing content plus the pricing table."""
        return jsonify(success=True, **LANDING, pricing=pricing_table())

    @app.route("/pricing")
    def pricing():
        return jsonify(success=True, pricing=pricing_table())

    # --- Error handlers ---
    @app.errorhandler(HTTPException)
    def http_error(e):
        return jsonify(success=False, error=e.description or e.name), e.code

    @app.errorhandler(429)
    def rate_limited(e):
        return jsonify(success=False, error="Too many requests. Try again later."), 429

    @app.errorhandler(500)
    def server_error(e):
        return jsonify(success=False, error="Internal server error"), 500

    # --- CLI commands ---
    register_cli(app)

    # --- Security headers ---
    @app.after_request
    def add_security_headers(response):
        """Add security headers to every response."""
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Permissions-Policy"] = (
            "camera=(), microphone=(), geolocation=(), payment=(self)"
        )
        # JSON only: nothing to load, nothing to frame
        response.headers["Content-Security-Policy"] = (
            "default-src 'none'; frame-ancestors 'none'; base-uri 'none'"
        )
        # Strict Transport Security (only in production)
        if not app.debug:
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response

    # --- Logging ---
    if not app.debug:
        logging.basicConfig(level=logging.INFO)

    return app


def register_cli(app):
    """Register custom CLI commands with the Flask app."""

    @app.cli.command("seed-demo")
    @click.option("--email", default="demo@leados.local", help="Demo user email")
    @click.option("--password", default="demo12345", help="Demo user password")
    def seed_demo(email, password):
        """Create a demo user and load the built-in target companies as leads.

        Usage:
            flask seed-demo
            flask seed-demo --email sdr@example.com --password s3cret123
        """
        from leados.models.user import User
        from leados.services.knowledge_service import TARGETS
        from leados.services.lead_service import bulk_create_leads

        user = User.query.filter_by(email=email).first()
        if user:
            click.echo(f"Demo user already exists: {email}")
        else:
            user = User(
                email=email,
                password_hash=generate_password_hash(password),
                display_name="Demo SDR",
                company="Leados Demo",
                role="admin",
            )
            db.session.add(user)
            db.session.flush()
            click.echo(f"Created demo user: {email}")

        created, duplicates, over_limit = bulk_create_leads(user, TARGETS, source="import")
        db.session.commit()

        click.echo("")
        click.echo("=" * 60)
        click.echo("Seed data created successfully!")
        click.echo("=" * 60)
        click.echo(f"  User:        {email} / {password}")
        click.echo(f"  Leads:       {len(created)} created")
        click.echo(f"  Duplicates:  {duplicates}")
        click.echo(f"  Over limit:  {over_limit}")
        click.echo("=" * 60)

    @app.cli.command("qualify-leads")
    @click.option("--user-email", required=True, help="Owner of the leads")
    def qualify_leads(user_email):
        """Mark a user's "new" leads as qualified by sector/regime keywords.

        Usage:
            flask qualify-leads --user-email sdr@example.com
        """
        from leados.models.user import User
        from leados.services.dashboard_service import keyword_qualify

        user = User.query.filter_by(email=user_email.lower().strip()).first()
        if not user:
            click.echo(f"ERROR: no user with email {user_email}")
            return
        count = keyword_qualify(user.id)
        db.session.commit()
        click.echo(f"{count} lead(s) qualified for {user.email}")

    @app.cli.command("send-onboarding-emails")
    @click.option("--dry-run", is_flag=True, help="Show what would be sent without actually sending.")
    def send_onboarding_emails(dry_run):
        """Send day 1/3/5/7 trial onboarding emails.

        Usage:
            flask send-onboarding-emails
            flask send-onboarding-emails --dry-run
        """
        from leados.services.onboarding_service import process_onboarding
        process_onboarding(dry_run=dry_run)

    @app.cli.command("send-upsell-emails")
    @click.option("--dry-run", is_flag=True, help="Show what would be sent without actually sending.")
    def send_upsell_emails(dry_run):
        """Email users at or above 85% of their monthly lead limit.

        Usage:
            flask send-upsell-emails
            flask send-upsell-emails --dry-run
        """
        from leados.services.onboarding_service import process_upsell
        process_upsell(dry_run=dry_run)
