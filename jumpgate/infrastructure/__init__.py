"""
Infrastructure layer: configuration, logging, credential stores and the
SSH services built on asyncssh.
"""
