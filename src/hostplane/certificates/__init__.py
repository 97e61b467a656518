"""Certificate material, sealing, installation and lifecycle."""
