"""Pure domain layer: status machine, pricing math, value objects. Zero I/O."""
