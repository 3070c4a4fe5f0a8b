"""Chart of accounts, organizations and business-type templates

Revision ID: 001_chart_of_accounts
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_chart_of_accounts'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute('CREATE EXTENSION IF NOT EXISTS "uuid-ossp"')

    op.create_table(
        'organizations',
        sa.Column('id', sa.String(64), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('business_type', sa.String(50), nullable=False, server_default='restaurant'),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )

    # Canonical accounts: 7-digit codes, one million per account type
    op.create_table(
        'chart_of_accounts',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('uuid_generate_v4()')),
        sa.Column('organization_id', sa.String(64), sa.ForeignKey('organizations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('account_code', sa.String(7), nullable=False),
        sa.Column('account_name', sa.String(255), nullable=False),
        sa.Column('account_type', sa.String(50), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('is_active', sa.Boolean, nullable=False, server_default='true'),
        sa.Column('allow_posting', sa.Boolean, nullable=False, server_default='true'),
        sa.Column('currency', sa.String(3), nullable=False, server_default='USD'),
        sa.Column('opening_balance', sa.Numeric(18, 2), nullable=False, server_default='0'),
        sa.Column('tax_deductible', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('notes', sa.Text),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.text('NOW()')),
    )
    op.create_unique_constraint('uq_coa_org_code', 'chart_of_accounts', ['organization_id', 'account_code'])
    op.create_index('idx_coa_org_type', 'chart_of_accounts', ['organization_id', 'account_type'])

    op.create_table(
        'coa_template_accounts',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True, server_default=sa.text('uuid_generate_v4()')),
        sa.Column('business_type', sa.String(50), nullable=False),
        sa.Column('account_code', sa.String(7), nullable=False),
        sa.Column('account_name', sa.String(255), nullable=False),
        sa.Column('account_type', sa.String(50), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('keywords', postgresql.ARRAY(sa.Text), nullable=False, server_default='{}'),
        sa.Column('aliases', postgresql.ARRAY(sa.Text), nullable=False, server_default='{}'),
        sa.Column('confidence', sa.Numeric(3, 2), nullable=False, server_default='0.9'),
        sa.Column('usage_frequency', sa.String(20), nullable=False, server_default='medium'),  # very_high, high, medium, low
        sa.Column('is_critical', sa.Boolean, nullable=False, server_default='false'),
        sa.Column('priority', sa.String(20), nullable=False, server_default='optional'),  # essential, recommended, optional
        sa.Column('sort_order', sa.Integer, nullable=False, server_default='0'),
    )
    op.create_unique_constraint('uq_template_business_code', 'coa_template_accounts', ['business_type', 'account_code'])

    # Restaurant template
    op.execute("""
        INSERT INTO coa_template_accounts (business_type, account_code, account_name, account_type, description, keywords, aliases, confidence, usage_frequency, is_critical, priority, sort_order) VALUES
        ('restaurant', '1001000', 'Cash on Hand', 'ASSET', 'Till and safe cash', ARRAY['cash', 'till', 'petty'], ARRAY['Petty Cash', 'Cash Drawer'], 0.98, 'very_high', true, 'essential', 10),
        ('restaurant', '1002000', 'Cash in Bank', 'ASSET', 'Operating bank accounts', ARRAY['bank', 'checking', 'operating'], ARRAY['Checking Account', 'Bank Account'], 0.98, 'very_high', true, 'essential', 20),
        ('restaurant', '1100000', 'Accounts Receivable', 'ASSET', 'Amounts owed by customers', ARRAY['receivable', 'customers'], ARRAY['AR', 'Trade Receivables'], 0.95, 'high', true, 'essential', 30),
        ('restaurant', '1200000', 'Food Inventory', 'ASSET', 'Food stock on hand', ARRAY['inventory', 'food', 'stock'], ARRAY['Kitchen Inventory'], 0.92, 'high', false, 'recommended', 40),
        ('restaurant', '1500000', 'Kitchen Equipment', 'ASSET', 'Ovens, fridges and kitchen fixtures', ARRAY['equipment', 'kitchen', 'fixtures'], ARRAY['Restaurant Equipment'], 0.90, 'medium', false, 'recommended', 50),
        ('restaurant', '2001000', 'Accounts Payable', 'LIABILITY', 'Amounts owed to suppliers', ARRAY['payable', 'suppliers', 'vendors'], ARRAY['AP', 'Trade Payables'], 0.97, 'very_high', true, 'essential', 60),
        ('restaurant', '2100000', 'Sales Tax Payable', 'LIABILITY', 'Sales tax collected, not yet remitted', ARRAY['sales', 'tax', 'payable'], ARRAY['VAT Payable', 'GST Payable'], 0.95, 'high', true, 'essential', 70),
        ('restaurant', '2200000', 'Tips Payable', 'LIABILITY', 'Gratuities owed to staff', ARRAY['tips', 'gratuities'], ARRAY['Gratuities Payable'], 0.90, 'high', false, 'recommended', 80),
        ('restaurant', '3001000', 'Owner''s Equity', 'EQUITY', 'Owner capital', ARRAY['owner', 'capital', 'equity'], ARRAY['Owners Capital', 'Capital Account'], 0.95, 'medium', true, 'essential', 90),
        ('restaurant', '3100000', 'Retained Earnings', 'EQUITY', 'Accumulated earnings', ARRAY['retained', 'earnings'], ARRAY['Accumulated Earnings'], 0.95, 'medium', true, 'essential', 100),
        ('restaurant', '4001000', 'Food Sales', 'REVENUE', 'Dine-in and takeaway food revenue', ARRAY['food', 'sales', 'revenue'], ARRAY['Food Revenue', 'Restaurant Sales'], 0.96, 'very_high', true, 'essential', 110),
        ('restaurant', '4002000', 'Beverage Sales', 'REVENUE', 'Drinks revenue', ARRAY['beverage', 'drinks', 'bar'], ARRAY['Bar Sales', 'Drink Sales'], 0.94, 'high', false, 'recommended', 120),
        ('restaurant', '4100000', 'Catering Revenue', 'REVENUE', 'Off-site catering income', ARRAY['catering', 'events'], ARRAY['Event Revenue'], 0.88, 'low', false, 'optional', 130),
        ('restaurant', '5001000', 'Food Cost', 'COST_OF_SALES', 'Cost of food ingredients sold', ARRAY['food', 'cost', 'ingredients', 'purchases'], ARRAY['COGS - Food', 'Food Purchases'], 0.95, 'very_high', true, 'essential', 140),
        ('restaurant', '5002000', 'Beverage Cost', 'COST_OF_SALES', 'Cost of drinks sold', ARRAY['beverage', 'cost', 'drinks'], ARRAY['COGS - Beverage', 'Bar Purchases'], 0.93, 'high', false, 'recommended', 150),
        ('restaurant', '6001000', 'Kitchen Wages', 'DIRECT_EXPENSE', 'Back-of-house payroll', ARRAY['wages', 'kitchen', 'payroll'], ARRAY['Cook Wages', 'BOH Wages'], 0.92, 'very_high', true, 'essential', 160),
        ('restaurant', '6002000', 'Front of House Wages', 'DIRECT_EXPENSE', 'Servers and hosts payroll', ARRAY['wages', 'servers', 'payroll'], ARRAY['FOH Wages', 'Server Wages'], 0.92, 'very_high', true, 'essential', 170),
        ('restaurant', '7001000', 'Rent Expense', 'INDIRECT_EXPENSE', 'Premises rent', ARRAY['rent', 'lease', 'premises'], ARRAY['Rent', 'Occupancy Cost'], 0.95, 'high', true, 'essential', 180),
        ('restaurant', '7002000', 'Utilities', 'INDIRECT_EXPENSE', 'Electricity, gas and water', ARRAY['utilities', 'electricity', 'gas', 'water'], ARRAY['Utility Expense'], 0.93, 'high', false, 'recommended', 190),
        ('restaurant', '7003000', 'Marketing', 'INDIRECT_EXPENSE', 'Advertising and promotions', ARRAY['marketing', 'advertising', 'promotion'], ARRAY['Advertising Expense'], 0.90, 'medium', false, 'optional', 200),
        ('restaurant', '8001000', 'Income Tax Expense', 'TAX_EXPENSE', 'Corporate income tax', ARRAY['income', 'tax'], ARRAY['Corporate Tax'], 0.95, 'low', false, 'recommended', 210),
        ('restaurant', '9001000', 'Extraordinary Losses', 'EXTRAORDINARY_EXPENSE', 'Unusual, non-recurring losses', ARRAY['extraordinary', 'loss', 'casualty'], ARRAY['Casualty Loss'], 0.85, 'low', false, 'optional', 220)
    """)


def downgrade() -> None:
    op.drop_table('coa_template_accounts')
    op.drop_index('idx_coa_org_type', table_name='chart_of_accounts')
    op.drop_table('chart_of_accounts')
    op.drop_table('organizations')
