"""Ad platform sync and performance ledger."""
