"""Local HTTP broker: signing sessions, wallet provisioning sessions, browser pages."""
