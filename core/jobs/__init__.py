# Periodic jobs: reconciliation and abandonment
