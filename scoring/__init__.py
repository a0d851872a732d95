"""Local scoring engine, categorization oracle adapter and bounty calculation."""
