"""Circuit Office: back-office for authoring, pricing and invoicing circuit trips."""
