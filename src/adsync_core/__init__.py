"""ADSYNC core: seller ad-account metric reconciliation and triage."""
