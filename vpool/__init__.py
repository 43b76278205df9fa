"""
Provisioning of single-use nodes from a pool coordinated through ZooKeeper.
"""
