"""Project Conductor agents: the shared agent toolkit and the bundled agents"""
