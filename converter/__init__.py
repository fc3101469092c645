"""Currency converter: token verification, history store and clients."""
