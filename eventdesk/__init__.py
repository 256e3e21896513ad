"""EventDesk: submit, review and publish community events."""
