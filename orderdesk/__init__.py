"""Order desk core: line-item staging, reconciliation and gated status transitions"""
