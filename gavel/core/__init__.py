"""Engine core: auction state machine, signed calls, storage"""
