"""HTTP retry helper, claim storage and claim ledger."""
