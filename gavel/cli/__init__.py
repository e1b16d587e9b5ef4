"""Command line host for the auction engine"""
