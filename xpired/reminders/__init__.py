"""Reminder scheduling and delayed dispatch (scheduler, queue, executor, worker).

Documents are scheduled on the request path; due tasks are drained by the
Celery beat scan or the thread worker and executed out of band.
"""
