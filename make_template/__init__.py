"""make-template: restore working projects from template undo logs."""
