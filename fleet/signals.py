from django.dispatch import Signal

# Sent once per simulator pass, after every position of the pass is stored.
# Receivers get ``snapshots``: a tuple of PositionSnapshot.
positions_published = Signal()

# Sent after a booking row is written or its status changes. Receivers get ``booking``.
booking_recorded = Signal()
