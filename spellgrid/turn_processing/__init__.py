"""Intent validation ahead of session mutation.

Both authorities (room registry and peer host) run every player intent
through the same pipeline so rejections look identical on either transport.
"""
