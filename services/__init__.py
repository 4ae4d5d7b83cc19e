"""Domain services: report lifecycle, assignment, attachments, staff accounts, audit and analytics."""
