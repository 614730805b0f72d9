"""Role hierarchy services: validation, conversion, planning and apply."""
