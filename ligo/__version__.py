version = '0.1.0'  # version line; WARNING: do not remove or change this line or comment
