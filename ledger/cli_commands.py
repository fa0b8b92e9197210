"""
Flask CLI commands for ledger maintenance.

Commands:
- flask init-db: Create all tables
- flask create-company: Create a company
- flask create-product: Create a product of a company
- flask next-number: Show the next invoice number of a company and type
- flask approve-invoice: Approve an invoice from the command line
"""

import click
from ledger import database
from ledger.exceptions import LedgerError
from ledger.models import Company, InvoiceType, Product


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create every table that does not exist yet."""
        database.create_all()
        click.echo(click.style('Tables created.', fg='green'))

    @app.cli.command('create-company')
    @click.option('--title', prompt=True, help='Company title (unique)')
    def create_company(title):
        """Create a new company."""
        session = database.get_session()

        title = title.strip()
        if not title:
            raise click.ClickException('Title cannot be empty.')

        if session.query(Company).filter_by(title=title).first():
            raise click.ClickException(f'A company titled "{title}" already exists.')

        try:
            company = Company(title=title)
            session.add(company)
            session.commit()
        except Exception:
            session.rollback()
            raise

        click.echo(click.style(f'Company created: {title} (id={company.id})', fg='green'))

    @app.cli.command('create-product')
    @click.option('--company-id', type=int, required=True)
    @click.option('--name', prompt=True, help='Product name')
    @click.option('--low-limit-alert', type=click.IntRange(min=0), default=0, show_default=True)
    def create_product(company_id, name, low_limit_alert):
        """Create a product with no stock; stock only moves through approved invoices."""
        from ledger.services.invoice_service import get_company

        session = database.get_session()

        name = name.strip()
        if not name:
            raise click.ClickException('Name cannot be empty.')

        try:
            get_company(session, company_id)
            product = Product(company_id=company_id, name=name, quantity_in_stock=0,
                              low_limit_alert=low_limit_alert)
            session.add(product)
            session.commit()
        except LedgerError as e:
            session.rollback()
            raise click.ClickException(e.message)
        except Exception:
            session.rollback()
            raise

        click.echo(click.style(f'Product created: {name} (id={product.id})', fg='green'))

    @app.cli.command('next-number')
    @click.option('--company-id', type=int, required=True)
    @click.option('--type', 'invoice_type', type=click.Choice([t.value for t in InvoiceType], case_sensitive=False),
                  default=InvoiceType.SALES.value, show_default=True)
    def next_number(company_id, invoice_type):
        """Show the number the next invoice would get."""
        from ledger.services.numbering_service import next_invoice_number

        session = database.get_session()
        try:
            click.echo(next_invoice_number(session, company_id, InvoiceType[invoice_type.upper()]))
        except LedgerError as e:
            raise click.ClickException(e.message)

    @app.cli.command('approve-invoice')
    @click.option('--company-id', type=int, required=True)
    @click.option('--invoice-id', type=int, required=True)
    def approve_invoice_command(company_id, invoice_id):
        """Approve an invoice (moves stock and computes FIFO profit/loss)."""
        from ledger.services.invoice_service import approve_invoice

        session = database.get_session()
        accumulate = app.config.get('FIFO_ACCUMULATE_PROFIT_LOSS', False)
        try:
            result = approve_invoice(invoice_id, session, company_id, accumulate_profit_loss=accumulate)
        except LedgerError as e:
            raise click.ClickException(e.message)

        click.echo(click.style(f"Invoice {result['invoice_no']} approved.", fg='green'))
        click.echo(f"   Price: {result['price']}  Tax: {result['tax']}  Total: {result['total']}")
        for line in result['lines']:
            click.echo(
                f"   - {line['product_name']}: qty {line['quantity']}, "
                f"profit/loss {line['profit_loss']}, remaining {line['remaining_quantity']}"
            )
