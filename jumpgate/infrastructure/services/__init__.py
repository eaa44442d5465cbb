"""
Network services of the gate.
"""
