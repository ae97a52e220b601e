"""Board change notifications: live streams, webhooks and the event ledger."""
