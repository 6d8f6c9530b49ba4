"""
Health ERP Chatbot

A menu-driven healthcare chatbot that proxies a remote healthcare REST API
for appointments, prescriptions, lab tests and reports.
"""

__version__ = "2.0.0"
__author__ = "Health ERP Team"
