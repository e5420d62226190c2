"""
AI extraction of structured fields from property documents.

The file is sent to the Anthropic Messages API as a base64 ``document``
(PDF) or ``image`` block together with a type-specific prompt; the model
answers with a JSON object which is parsed and scored.
"""
import base64
import json
import logging
import re

import requests
from flask import current_app

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = '2023-06-01'
MAX_TOKENS = 4096
REQUEST_TIMEOUT = 120

SYSTEM_PROMPT = (
    'You are a document analysis assistant for real estate investors. '
    'Extract the requested information from the document and respond with a single JSON object only. '
    'Use null for fields that are not present. Dates must be YYYY-MM-DD and amounts plain numbers.'
)

GENERIC_PROMPT = (
    'Extract the key information from this document as JSON with these fields: '
    'document_title, document_date, parties (list of names), amounts (list of '
    '{label, amount}), key_dates (list of {label, date}), summary.'
)

EXTRACTION_PROMPTS = {
    'lease': (
        'Extract lease terms as JSON with these fields: tenant_names (list), landlord_name, '
        'property_address, unit, lease_start_date, lease_end_date, monthly_rent, security_deposit, '
        'pet_deposit, rent_due_day, late_fee, lease_type, renewal_terms, utilities_included (list), summary.'
    ),
    'tax_bill': (
        'Extract property tax information as JSON with these fields: tax_year, parcel_number, '
        'property_address, assessed_value, land_value, improvement_value, total_tax_amount, '
        'installments (list of {due_date, amount}), taxing_authority, exemptions (list), summary.'
    ),
    'insurance_policy': (
        'Extract insurance policy details as JSON with these fields: policy_number, carrier_name, '
        'insured_names (list), property_address, policy_start_date, policy_end_date, premium_amount, '
        'premium_frequency, dwelling_coverage, liability_coverage, loss_of_rents_coverage, deductible, '
        'mortgagee, summary.'
    ),
    'mortgage_statement': (
        'Extract mortgage statement details as JSON with these fields: lender_name, loan_number, '
        'statement_date, principal_balance, interest_rate, monthly_payment, principal_portion, '
        'interest_portion, escrow_portion, escrow_balance, next_due_date, summary.'
    ),
    'closing_disclosure': (
        'Extract closing disclosure details as JSON with these fields: closing_date, purchase_price, '
        'loan_amount, interest_rate, loan_term_months, monthly_principal_interest, cash_to_close, '
        'closing_costs, lender_name, seller_credits, property_address, summary.'
    ),
    'hoa_statement': (
        'Extract HOA statement details as JSON with these fields: association_name, statement_date, '
        'account_number, dues_amount, dues_frequency, special_assessments, balance_due, due_date, summary.'
    ),
    'utility_bill': (
        'Extract utility bill details as JSON with these fields: provider_name, utility_type, account_number, '
        'service_address, billing_period_start, billing_period_end, amount_due, due_date, usage, summary.'
    ),
    'receipt': (
        'Extract receipt details as JSON with these fields: vendor_name, receipt_date, total_amount, '
        'tax_amount, payment_method, line_items (list of {description, amount}), suggested_category, summary.'
    ),
    'contractor_invoice': (
        'Extract contractor invoice details as JSON with these fields: contractor_name, invoice_number, '
        'invoice_date, due_date, total_amount, labor_amount, materials_amount, work_description, '
        'line_items (list of {description, amount}), is_capital_improvement, summary.'
    ),
    'year_end_report': (
        'Extract year-end property report details as JSON with these fields: tax_year, management_company, '
        'gross_rents, other_income, total_income, management_fees, repairs, utilities, insurance, '
        'property_taxes, other_expenses, total_expenses, net_operating_income, owner_distributions, summary.'
    ),
    '1099': (
        'Extract 1099 form details as JSON with these fields: form_type, tax_year, payer_name, payer_tin, '
        'recipient_name, recipient_tin, gross_rents, other_income, federal_tax_withheld, summary.'
    ),
    'appraisal': (
        'Extract appraisal details as JSON with these fields: appraisal_date, appraiser_name, '
        'property_address, appraised_value, approach_used, comparable_sales (list of {address, price}), '
        'square_footage, summary.'
    ),
    'inspection': (
        'Extract inspection report details as JSON with these fields: inspection_date, inspector_name, '
        'property_address, major_issues (list), minor_issues (list), estimated_repair_costs, summary.'
    ),
    'rent_roll': (
        'Extract rent roll details as JSON with these fields: as_of_date, units (list of {unit, tenant, '
        'monthly_rent, lease_end_date, status}), total_monthly_rent, occupancy_rate, summary.'
    ),
}

REQUIRED_FIELDS = {
    'lease': ('monthly_rent',),
    'tax_bill': ('total_tax_amount', 'tax_year'),
    'insurance_policy': ('premium_amount', 'policy_number'),
    'mortgage_statement': ('principal_balance', 'interest_rate'),
    '1099': ('tax_year', 'gross_rents'),
}


class ExtractionError(Exception):
    pass


def get_extraction_prompt(document_type):
    return EXTRACTION_PROMPTS.get(document_type, GENERIC_PROMPT)


def build_content_block(file_bytes, mime_type):
    encoded = base64.b64encode(file_bytes).decode('ascii')
    if mime_type == 'application/pdf':
        return {
            'type': 'document',
            'source': {'type': 'base64', 'media_type': 'application/pdf', 'data': encoded}
        }
    media_type = 'image/jpeg' if mime_type == 'image/jpg' else mime_type
    return {
        'type': 'image',
        'source': {'type': 'base64', 'media_type': media_type, 'data': encoded}
    }


def strip_code_fences(text):
    match = re.search(r'```(?:json)?\s*(.*?)```', text, re.DOTALL)
    return (match.group(1) if match else text).strip()


def parse_extraction_response(text, filename):
    """Parse the model's JSON; unparseable output becomes a minimal summary"""
    try:
        data = json.loads(strip_code_fences(text))
    except json.JSONDecodeError:
        logger.warning(f"Could not parse extraction output for {filename}")
        return {
            'summary': 'Failed to parse document. Raw extraction attempted.',
            'document_title': filename
        }
    if not isinstance(data, dict):
        return {'summary': str(data), 'document_title': filename}
    return data


def calculate_confidence(text, stop_reason):
    if '{' not in text:
        return 0.3
    confidence = 0.85
    if stop_reason == 'end_turn':
        confidence += 0.1
    return min(round(confidence, 2), 1.0)


def extract_document_data(file_bytes, mime_type, document_type, filename):
    """Run extraction; returns ``(data, confidence)`` or raises ``ExtractionError``"""
    api_key = current_app.config.get('ANTHROPIC_API_KEY')
    if not api_key:
        raise ExtractionError('AI extraction is not configured (ANTHROPIC_API_KEY missing)')

    payload = {
        'model': current_app.config.get('DOCUMENT_EXTRACTION_MODEL'),
        'max_tokens': MAX_TOKENS,
        'system': SYSTEM_PROMPT,
        'messages': [{
            'role': 'user',
            'content': [
                build_content_block(file_bytes, mime_type),
                {'type': 'text', 'text': get_extraction_prompt(document_type)}
            ]
        }]
    }
    url = f"{current_app.config.get('ANTHROPIC_API_URL', '').rstrip('/')}/v1/messages"
    try:
        response = requests.post(url, json=payload, timeout=REQUEST_TIMEOUT, headers={
            'x-api-key': api_key,
            'anthropic-version': ANTHROPIC_VERSION,
            'content-type': 'application/json'
        })
        response.raise_for_status()
    except requests.RequestException as e:
        raise ExtractionError(f'Extraction request failed: {e}') from e

    body = response.json()
    text = ''.join(block.get('text', '') for block in body.get('content', []) if block.get('type') == 'text')
    if not text:
        raise ExtractionError('Extraction returned no text content')

    return parse_extraction_response(text, filename), calculate_confidence(text, body.get('stop_reason'))


def validate_extracted_data(document_type, data):
    """Return ``(is_valid, missing_fields)`` for the type's required fields"""
    required = REQUIRED_FIELDS.get(document_type, ())
    missing = [field for field in required if data.get(field) in (None, '')]
    return not missing, missing
