"""Extraction prompts sent to the vision model.

The JSON keys named here are the keys accepted by the decoders in
``ledgerscan.parsers.document_types``; rename them in both places together.
"""

from ledgerscan.models import DocumentKind

SYSTEM_PROMPT = (
    "You are a specialized financial document parser. Extract the requested details "
    "and return them as raw JSON. Do not use markdown formatting, code blocks, or any "
    "other text formatting. Return only the JSON."
)

_DATE_FORMATS = """1. Date Formats to Handle:
   - DD/MM/YYYY (e.g., 25/12/2023)
   - MM/DD/YYYY (e.g., 12/25/2023)
   - DD/MM/YY (e.g., 25/12/23)
   - MM/YY (e.g., 12/23)
   - YYYY-MM-DD (e.g., 2023-12-25)"""

RECEIPT_PROMPT = f"""Please analyze this receipt image and extract the transaction information. The receipt may be in various formats:

{_DATE_FORMATS}

2. Amount Formats to Handle:
   - Amounts with currency symbols (e.g., RM 12.50, $12.50)
   - Amounts with thousands separators (e.g., 1,200.50)
   - Amounts with +/- signs (e.g., +12.50 or -12.50 or 12.50+ or 12.50-)
   - Amounts with CR/DR indicators (e.g., 12.50 CR)
   - Amounts in parentheses (e.g., (12.50))

3. For the receipt, identify:
   - Date of purchase (convert to YYYY-MM-DD format)
   - Merchant name
   - Total amount (including tax)
   - Description (brief summary of items purchased)
   - Category (e.g., Groceries, Dining, Transport, Shopping, Health, Education, Other)

4. Important guidelines:
   - Skip any header/footer information
   - Focus on actual transaction details
   - For MM/YY format, use the first day of the month
   - Remove currency symbols and commas from amounts, keeping any sign, CR/DR indicator or parentheses
   - Keep description concise but informative
   - Use null for any field you cannot read

5. Output format:
   Return a single JSON object (not an array):
   {{
     "date": "YYYY-MM-DD",
     "merchant": "merchant name",
     "amount": "total amount with any sign or indicator",
     "description": "brief summary of items",
     "category": "category name"
   }}

Return only the JSON object. Do not include explanations, notes, or markdown code fences."""

STATEMENT_PROMPT = f"""Please analyze this bank statement image and extract transaction information. The statement may be in various formats:

{_DATE_FORMATS}

2. Amount Formats to Handle:
   - Separate credit/debit columns
   - Amounts with +/- signs (e.g., +1000.00 or -500.00 or 1000.00+ or 500.00-)
   - Amounts with CR/DR indicators (e.g., 1,200.50 CR)
   - Amounts with currency symbols and thousands separators
   - Amounts in parentheses (e.g., (500.00))

3. For each transaction, identify:
   - Date (convert to YYYY-MM-DD format)
   - Transaction type (credit or debit)
   - Description (transaction details)
   - Amount, keeping any sign, CR/DR indicator or parentheses shown on the statement

4. Important guidelines:
   - Skip any header/footer information and running balances
   - Focus only on actual transactions
   - For MM/YY format, use the first day of the month
   - Determine transaction type based on:
     * Explicit CR/DR indicators
     * +/- signs
     * Separate credit/debit columns
   - Preserve the exact transaction description text
   - If transaction type is unclear, mark it as "unknown"
   - If no transactions are visible, return an empty array []

5. Output format:
   Return a JSON array with one object per transaction:
   [
     {{
       "date": "YYYY-MM-DD",
       "type": "credit/debit/unknown",
       "description": "transaction details",
       "amount": "amount as shown"
     }}
   ]

Maintain the chronological order of transactions. Return only the JSON array. Do not include explanations, notes, or markdown code fences."""

_PROMPTS = {
    DocumentKind.RECEIPT: RECEIPT_PROMPT,
    DocumentKind.BANK_STATEMENT: STATEMENT_PROMPT,
}


def build_prompt(kind: DocumentKind) -> str:
    """Return the extraction instructions for a document kind."""
    return _PROMPTS[kind]
