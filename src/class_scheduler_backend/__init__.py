'''
Class Scheduler Backend.

Async service layer that materializes weekly class time slots into dated
tutoring sessions and resolves which tutor teaches each of them.
'''
