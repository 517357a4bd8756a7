"""Planning documents."""
